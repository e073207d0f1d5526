"""LazyCoder - architecture diagram to Terraform project pipeline.

This package drives a sequence of generation agents that analyze an
architecture diagram, write and review Terraform code, and enrich it with
documentation, cost estimates, security findings, a Mermaid diagram and
optional DevOps automation, followed by a chat-based refinement loop.
"""

__version__ = "0.1.0"
