# Domain Layer
# ============
# Pure values and functions: models, error taxonomy, validation,
# fingerprinting and spam scoring. Nothing here touches I/O.
