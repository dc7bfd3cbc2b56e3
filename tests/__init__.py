"""
Test suite for the ingredient demand pipeline.

Run tests:
    pytest
"""
