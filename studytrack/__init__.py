"""Learning-track scheduler and progress engine."""
