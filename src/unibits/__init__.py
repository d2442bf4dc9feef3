"""UniBits API — progression, rewards, shop and social engine for the learning platform."""
