"""Competitive programming club portal - contest judging backend"""
