"""BandHub video worker: ingestion, promotion and maintenance of marching band videos."""
