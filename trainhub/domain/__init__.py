"""Lifecycle domains: requests → applications → bookings → agreements → feedback"""
