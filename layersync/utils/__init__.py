"""Utility modules (image fetching and inspection)"""
