# shopcatalog/constants.py
"""وضعیت‌های مکالمه"""

# افزودن دسته‌بندی
(
    WAITING_CATEGORY_NAME,
    WAITING_CATEGORY_DESCRIPTION,
    WAITING_PARENT_CATEGORY,
) = range(3)
