"""Command-line interface for projopt"""
