# Served by /version; also used as the package version.
SEMANTIC_VERSION = "0.3.0"
