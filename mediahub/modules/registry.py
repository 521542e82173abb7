# Every mapped model, so Base.metadata is complete for create_all and FK resolution.
from mediahub.modules.users.models import User  # noqa: F401
from mediahub.modules.assets.models import MediaAsset, VideoMetadata, AssetView  # noqa: F401
from mediahub.modules.events.outbox import EventOutbox  # noqa: F401
from mediahub.modules.playlists.models import Playlist, PlaylistItem  # noqa: F401
