"""Core infrastructure: database, security, exceptions"""
