"""
cert_gateway — product certificate upload and validation gateway.

Accepts a product's certification document together with a claimed
certificate identifier, checks the identifier against the ISCC certificate
registry and, when valid, stores the document and its metadata under the
owning product. Reachable over HTTP and over a Pub/Sub request/response
channel.

Built on the Railway-Oriented Programming (ROP) framework for
explicit, composable, functional error handling.
"""

__version__ = "0.1.0"
