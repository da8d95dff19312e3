"""
Diagnostic output: report models and the synthesizer that assembles them
from session state and model drafts.
"""
