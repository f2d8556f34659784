"""Control plane for the sartwc compositor: IPC protocol server and workspace registry."""

__version__ = "1.0.0"
