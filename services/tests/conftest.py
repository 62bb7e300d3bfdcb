"""
Top-level test configuration for Ledgerflow.
"""

import os

# Ensure test-friendly defaults
os.environ.setdefault("LEDGERFLOW_JSON_LOGS", "false")
os.environ.setdefault("LEDGERFLOW_LOG_LEVEL", "DEBUG")
os.environ.setdefault("LEDGERFLOW_AUTH__JWT_SECRET", "test-signing-secret")
os.environ.setdefault("LEDGERFLOW_AUTH__BCRYPT_ROUNDS", "4")
