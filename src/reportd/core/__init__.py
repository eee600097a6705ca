"""reportd core -- Fehlerhierarchie und gemeinsame Basistypen."""
