"""CLI module for xtwallet."""
