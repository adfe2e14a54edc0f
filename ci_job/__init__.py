"""
Script: ci_job package
What: Holds the CI job dispatcher that replaced the older job shell script.
Doing: Groups the CLI entry point, step implementations, and shared utility code in one importable package.
Why: Keeps CI logic readable and testable instead of spreading it across shell conditionals.
Goal: Provide a clear, maintainable home for install, build, scan, and test steps.
"""
