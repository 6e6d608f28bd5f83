"""
pagesync core: configuration, event bus, watcher, pages, injection and the
session that ties them together.
"""
