# polyglot_press/db/__init__.py
