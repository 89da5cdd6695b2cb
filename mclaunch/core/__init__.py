"""Instance layout, argument assembly and game launch."""
