"""
E2E runner test suite
"""
