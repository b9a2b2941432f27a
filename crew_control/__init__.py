"""Crew Control: workflow and task orchestration for the AI family crew."""
