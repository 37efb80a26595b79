"""Pegasus support backend"""
