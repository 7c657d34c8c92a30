from .artist import ArtistGateway
from .dj import DJGateway

__all__ = ['ArtistGateway', 'DJGateway']
