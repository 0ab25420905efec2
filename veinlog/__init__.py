"""Event types, logged-component selection, content sets, customer data files and a database logger entity."""

__version__ = "0.1.0"