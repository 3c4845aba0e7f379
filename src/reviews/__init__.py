"""Passenger reviews of completed journeys and the bus ratings aggregated from them."""
