"""Source adapters: one implementation per upstream transport."""
