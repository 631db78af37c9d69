from .catalog import TireModel, Container, Driver, Car, Season, SeasonDriverAssociation
from .tires import Tire, TireHistory

__all__ = [
    'TireModel', 'Container', 'Driver', 'Car', 'Season', 'SeasonDriverAssociation',
    'Tire', 'TireHistory',
]
