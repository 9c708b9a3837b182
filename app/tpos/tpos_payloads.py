# app/tpos/tpos_payloads.py
# --------------------------------------------------------------------------------------
# Request bodies for ProductTemplate/ODataService.InsertV2.
# A template always goes up with all of its variants in one call.
# --------------------------------------------------------------------------------------
from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from app.sync.components.attributes import combination_attribute_values
from app.sync.components.matrix import VariantCombination

# Default unit "Cái" (piece) and category "Có thể bán" (sellable) on the shop
_UOM = {
    "Id": 1,
    "Name": "Cái",
    "Rounding": 0.001,
    "Active": True,
    "Factor": 1,
    "FactorInv": 1,
    "UOMType": "reference",
    "CategoryId": 1,
    "CategoryName": "Đơn vị",
    "ShowUOMType": "Đơn vị gốc của nhóm này",
    "NameGet": "Cái",
    "ShowFactor": 1,
    "DateCreated": "2018-05-25T15:44:44.14+07:00",
}

_CATEG = {
    "Id": 2,
    "Name": "Có thể bán",
    "CompleteName": "Có thể bán",
    "ParentLeft": 0,
    "ParentRight": 1,
    "Type": "normal",
    "PropertyCostMethod": "average",
    "NameNoSign": "Co the ban",
    "IsPos": True,
    "IsDelete": False,
}


def build_variant_row(
    code: str,
    combo: VariantCombination,
    attributes: Sequence[Dict[str, Any]],
    selling_price: int,
) -> Dict[str, Any]:
    name = combo.display_name(code)
    return {
        "Id": 0,
        "EAN13": None,
        "NameTemplate": code,
        "ProductTmplId": 0,
        "UOMId": 0,
        "UOMPOId": 0,
        "QtyAvailable": 0,
        "VirtualAvailable": 0,
        "NameGet": name,
        "Thumbnails": [],
        "PriceVariant": selling_price,
        "SaleOK": True,
        "PurchaseOK": True,
        "LstPrice": 0,
        "Active": True,
        "ListPrice": 0,
        "StandardPrice": 0,
        "Weight": 0,
        "IsDiscount": False,
        "ProductTmplEnableAll": False,
        "Version": 0,
        "Type": "product",
        "CategId": 0,
        "InvoicePolicy": "order",
        "Variant_TeamId": 0,
        "Name": name,
        "PurchaseMethod": "receive",
        "SaleDelay": 0,
        "AvailableInPOS": True,
        "NameTemplateNoSign": code,
        "TaxesIds": [],
        "NameCombos": [],
        "Product_UOMId": None,
        "InitInventory": 0,
        "AttributeValues": combination_attribute_values(combo, attributes),
    }


def build_product_template(
    *,
    code: str,
    name: str,
    purchase_price: int,
    selling_price: int,
    image_b64: Optional[str],
    attribute_lines: List[Dict[str, Any]] | None = None,
    variants: List[Dict[str, Any]] | None = None,
) -> Dict[str, Any]:
    """
    Parent ProductTemplate body. With no attribute lines and no variants this is
    the simple-product form.
    """
    variants = variants or []
    return {
        "Id": 0,
        "Name": name,
        "Type": "product",
        "ShowType": "Có thể lưu trữ",
        "ListPrice": selling_price,
        "DiscountSale": 0,
        "DiscountPurchase": 0,
        "PurchasePrice": purchase_price,
        "StandardPrice": 0,
        "SaleOK": True,
        "PurchaseOK": True,
        "Active": True,
        "UOMId": 1,
        "UOMPOId": 1,
        "IsProductVariant": False,
        "EAN13": None,
        "DefaultCode": code,
        "QtyAvailable": 0,
        "VirtualAvailable": 0,
        "OutgoingQty": 0,
        "IncomingQty": 0,
        "CategId": 2,
        "Weight": 0,
        "Tracking": "none",
        "CompanyId": 1,
        "SaleDelay": 0,
        "InvoicePolicy": "order",
        "PurchaseMethod": "receive",
        "AvailableInPOS": True,
        "Barcode": code,
        "Image": image_b64,
        "Thumbnails": [],
        "ProductVariantCount": len(variants),
        "BOMCount": 0,
        "IsCombo": False,
        "EnableAll": False,
        "Version": 0,
        "InitInventory": 0,
        "UOM": dict(_UOM),
        "Categ": dict(_CATEG),
        "UOMPO": dict(_UOM),
        "AttributeLines": list(attribute_lines or []),
        "Items": [],
        "UOMLines": [],
        "ComboProducts": [],
        "ProductSupplierInfos": [],
        "ProductVariants": variants,
    }
