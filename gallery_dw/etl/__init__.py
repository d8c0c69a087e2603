"""ETL from the gallery OLTP database to the warehouse."""
