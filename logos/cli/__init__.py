"""
CLI Module - Typer command-line interface.
"""
