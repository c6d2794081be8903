"""Multi-voucher validation and redemption engine."""
