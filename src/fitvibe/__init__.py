"""FitVibe API: social fitness tracking backend."""
