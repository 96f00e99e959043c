BOOKS = [
    ("Dune", "Frank Herbert"),
    ("Neuromancer", "William Gibson"),
    ("Hyperion", "Dan Simmons"),
    ("The Left Hand of Darkness", "Ursula K. Le Guin"),
]
