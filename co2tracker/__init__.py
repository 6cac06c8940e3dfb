"""Realtime notification layer for the CO2 footprint tracker."""
