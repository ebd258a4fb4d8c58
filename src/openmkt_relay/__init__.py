"""OpenMkt relay: bot-mediated buyer/seller introductions over AT Protocol chat."""

__version__ = "0.1.0"
