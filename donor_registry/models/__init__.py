from .donor import Donor
