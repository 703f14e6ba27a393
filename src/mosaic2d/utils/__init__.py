"""Utility helpers: logging, platform paths, memory tracking, image I/O"""
