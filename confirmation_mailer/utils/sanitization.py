def mask_email(email: str) -> str:
    """Mask email for privacy: jo***@gm***.com"""
    if not email or "@" not in email:
        return "***@***.***"
    local, domain = email.rsplit("@", 1)
    domain_parts = domain.split(".")
    masked_local = f"{local[:2]}***" if len(local) > 2 else f"{local[:1]}***"
    masked_domain = (
        f"{domain_parts[0][:2]}***" if len(domain_parts[0]) > 2 else f"{domain_parts[0][:1]}***"
    )
    if len(domain_parts) < 2:
        return f"{masked_local}@{masked_domain}"
    return f"{masked_local}@{masked_domain}.{domain_parts[-1]}"
