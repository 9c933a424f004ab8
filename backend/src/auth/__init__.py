"""Operator authentication: login against the ERP, operator tokens, sessions."""
