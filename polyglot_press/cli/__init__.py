# polyglot_press/cli/__init__.py
"""Polyglot-Press 命令行工具。"""
