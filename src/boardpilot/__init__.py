"""BoardPilot - work item specification, planning and bulk creation for Azure DevOps Boards."""

__version__ = "0.1.0"
