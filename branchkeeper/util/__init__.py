"""Misc common functions"""
