XSLT_NAMESPACE = "http://www.w3.org/1999/XSL/Transform"

TEXT_OUTPUT = '<xsl:output method="text"/>'


def stylesheet(body: str, version: str = "1.0", attributes: str = "") -> str:
    return (
        f'<xsl:stylesheet version="{version}" xmlns:xsl="{XSLT_NAMESPACE}"'
        f"{attributes}>{body}</xsl:stylesheet>"
    )
