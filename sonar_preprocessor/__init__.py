"""Prepare SonarQube analyses: fetch server settings and write rulesets."""

__version__ = "0.1.0"
