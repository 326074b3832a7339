"""Docstring annotations: type grammar, doc blocks and the unit parser."""
