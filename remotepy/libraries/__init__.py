"""Built-in procedure libraries, loaded with `Client.use_library(name)`.
"""
