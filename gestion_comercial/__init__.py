"""API de gestión comercial: proveedores, vendedores y facturación AFIP."""
