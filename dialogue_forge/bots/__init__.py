"""Chat front-ends for previewing graphs."""
