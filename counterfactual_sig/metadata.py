"""
Metadata utilities for the counterfactual-sig package.

This module exposes the client identification header sent with every JSON-RPC
request made by :class:`counterfactual_sig.async_client.JsonRpcClient`, so node
operators can tell verifier traffic apart from wallet traffic.

Examples:
    Get the header value::

        from counterfactual_sig.metadata import Metadata

        header_value = Metadata.get_client_header_val()
        # "counterfactual-sig/0.3.0"

    Use in HTTP requests::

        import httpx

        headers = {
            Metadata.CLIENT_HEADER: Metadata.get_client_header_val(),
            "Content-Type": "application/json",
        }

Note:
    Version information is detected from the installed package metadata. A
    source checkout that was never installed reports ``0.0.0``.
"""

import importlib.metadata as metadata

# Package name constant for metadata lookup
PACKAGE_NAME = "counterfactual-sig"


class Metadata:
    """Utility class for package metadata and HTTP identification headers."""

    # HTTP header name for client identification
    CLIENT_HEADER = "x-counterfactual-sig-client"

    @staticmethod
    def get_client_header_val() -> str:
        """Generate the client header value for HTTP requests.

        Returns:
            str: Header value in the format "counterfactual-sig/{version}"
        """
        try:
            version = metadata.version(PACKAGE_NAME)
        except metadata.PackageNotFoundError:
            version = "0.0.0"
        return f"counterfactual-sig/{version}"
