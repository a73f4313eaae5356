"""Bot da campanha de doações do Bilau (PIX)."""
