"""Supermarket Monitor — Notification Delivery"""
