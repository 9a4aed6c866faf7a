"""Supermarket Monitor — HTTP Admin API"""
