"""TaskMaster: a multi-tenant task tracking REST API."""

__version__ = "1.0.0"
