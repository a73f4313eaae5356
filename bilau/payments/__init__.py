"""Ciclo de vida dos pagamentos PIX: gateway, pendentes, verificação e controller."""
