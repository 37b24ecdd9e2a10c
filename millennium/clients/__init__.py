"""Client facades built on top of :mod:`millennium.core`."""
