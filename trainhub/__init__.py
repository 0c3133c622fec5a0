"""TrainHub API - training marketplace lifecycle backend"""
