__all__ = ["GalleryEntry", "GridGallery", "SingleGallery"]


def __getattr__(name: str):
    if name == "GalleryEntry":
        from avis.gallery.entry import GalleryEntry

        return GalleryEntry
    if name in {"GridGallery", "SingleGallery"}:
        from avis.gallery.grid import GridGallery
        from avis.gallery.single import SingleGallery

        return {"GridGallery": GridGallery, "SingleGallery": SingleGallery}[name]
    raise AttributeError(name)
