"""Test suite for risk_register."""
