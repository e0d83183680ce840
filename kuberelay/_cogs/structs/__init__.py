"""
Plain data structures: credentials, resource references, raw bodies.

No external calls or any i/o activities are done here.
"""
