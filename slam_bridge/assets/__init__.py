"""Map assets: occupancy grid rasterization and on-disk export."""
