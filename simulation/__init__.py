"""Synthetic world and sensor data generation for Scanloc."""
