"""Action lists bundled with perftune, loaded by name (``perftune apply performance``)."""
