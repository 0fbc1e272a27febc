from django.urls import path
from . import views

urlpatterns = [
    # FAQ endpoints
    path('faqs/', views.faq_list_create, name='faq-list-create'),
    path('faqs/categories/', views.faq_categories, name='faq-categories'),
    path('faqs/order/', views.faq_order, name='faq-order'),
    path('faqs/<int:pk>/', views.faq_detail, name='faq-detail'),
    path('faqs/<int:pk>/toggle/', views.faq_toggle, name='faq-toggle'),

    # Chat endpoints
    path('messages/', views.message_create, name='message-create'),
    path('messages/reply/', views.message_reply, name='message-reply'),
    path('messages/threads/', views.message_threads, name='message-threads'),
    path('messages/recent/', views.messages_recent, name='messages-recent'),
    path('messages/read/', views.messages_mark_read, name='messages-mark-read'),
    path('messages/customer/<int:customer_id>/', views.messages_by_customer, name='messages-by-customer'),
    path('messages/guest/<str:guest_id>/', views.messages_by_guest, name='messages-by-guest'),

    # Auto reply endpoints
    path('auto-replies/', views.auto_reply_list_create, name='auto-reply-list-create'),
    path('auto-replies/active/', views.auto_reply_active, name='auto-reply-active'),
    path('auto-replies/quick-questions/', views.auto_reply_quick_questions, name='auto-reply-quick-questions'),
    path('auto-replies/categories/', views.auto_reply_categories, name='auto-reply-categories'),
    path('auto-replies/category/<str:category>/', views.auto_reply_by_category, name='auto-reply-by-category'),
    path('auto-replies/order/', views.auto_reply_order, name='auto-reply-order'),
    path('auto-replies/settings/', views.auto_reply_settings, name='auto-reply-settings'),
    path('auto-replies/<int:pk>/', views.auto_reply_detail, name='auto-reply-detail'),
]
