"""
Test suite for the Clinic Console.

Contains unit tests for the session, registry and workflows, and integration
tests for the console API against a fake clinic backend.
"""
import os

# Set environment for testing
os.environ["TESTING"] = "1"
