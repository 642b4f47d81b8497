"""
Workflow state machine and session registry.
"""
