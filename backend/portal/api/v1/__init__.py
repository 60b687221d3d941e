"""Versioned API routers"""
