"""
Pokemon lookup feature: resolve a name through cache, Postgres and PokeAPI.
"""
