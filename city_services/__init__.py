"""City services council: department lifecycle supervision and routing resolution."""
