"""Build Relay - Firmware Compilation Job Orchestrator

Hands compilation jobs to remote compiler agents through a shared
coordination store and tracks them to completion.
"""

__version__ = "0.1.0"
