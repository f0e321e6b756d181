"""Community mini-tournament prize-pool backend."""
